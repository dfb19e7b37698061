import pytest


@pytest.fixture()
def shipping_address():
    return {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "address": "12 Analytical Way",
        "city": "London",
        "state": "Greater London",
        "zip_code": "N1 9GU",
        "country": "GB",
        "phone": "+44 20 7946 0000",
    }


@pytest.fixture()
def pricing():
    return {
        "subtotal": 200.0,
        "tax": 32.0,
        "shipping": 150.0,
        "discount": 0.0,
        "total": 382.0,
        "currency": "USD",
    }


@pytest.fixture()
def card_method():
    return {"kind": "card", "brand": "visa", "last4": "4242"}


@pytest.fixture()
def items_data():
    return [
        {
            "product_id": "prod-001",
            "product_name": "Linen Shirt",
            "sku": "SKU-001",
            "images": ["https://cdn.example.com/shirt.jpg"],
            "quantity": 2,
            "size": "M",
            "color": "white",
            "unit_price": 100.0,
        },
        {
            "product_id": "prod-002",
            "variant_id": "var-002",
            "product_name": "Canvas Sneaker",
            "quantity": 1,
            "unit_price": 59.99,
        },
    ]

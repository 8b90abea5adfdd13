from app.models.receipt import Receipt

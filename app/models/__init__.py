from app.models.user import User
from app.models.address import Address
from app.models.product import Product
from app.models.order import Order
from app.models.order_address import OrderAddress
from app.models.order_item import OrderItem

# add ALL models here

from marketplace.models.user import User, UserRole
from marketplace.models.product import Product
from marketplace.models.order import Order, OrderItem, OrderStatus
from marketplace.models.review import Review, ReviewLink, ReviewNote, Reaction

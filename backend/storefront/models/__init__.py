from .auth import User, UserToken
from .sessions import Session
from .catalog import Category, Product, RecentlyViewedProduct, discount_product
from .promotions import Discount, CouponCode
from .carts import Cart, CartItem
from .orders import Order, OrderItem

__all__ = [
    'User', 'UserToken',
    'Session',
    'Category', 'Product', 'RecentlyViewedProduct', 'discount_product',
    'Discount', 'CouponCode',
    'Cart', 'CartItem',
    'Order', 'OrderItem',
]

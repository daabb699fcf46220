# Roles
STUDENT = 'STUDENT'
MANAGER = 'MANAGER'
ADMIN = 'ADMIN'
CATERER = 'CATERER'

STAFF_ROLES = (MANAGER, ADMIN, CATERER)
MENU_MANAGEMENT_ROLES = (MANAGER, ADMIN)

# User statuses
USER_PENDING = 'PENDING'
USER_APPROVED = 'APPROVED'
USER_REJECTED = 'REJECTED'
USER_SUSPENDED = 'SUSPENDED'

USER_STATUSES = (USER_PENDING, USER_APPROVED, USER_REJECTED, USER_SUSPENDED)

# Menu
MENU_CATEGORIES = ('BREAKFAST', 'LUNCH', 'DINNER', 'SNACKS', 'BEVERAGES')

# Payments
PAYMENT_METHODS = ('cash', 'card', 'upi')
PAYMENT_PENDING = 'PENDING'

DEFAULT_TAX_RATE = '0.1'
DEFAULT_ORDER_NUMBER_PREFIX = 'AH'
ORDER_NUMBER_DIGITS = 6
ORDERS_COUNTER = 'orders'

DEFAULT_PAGE_SIZE = 10

LOGGER_NAME = "pos-orchestrator"

METHOD_PREFIX = "api/method/centro_pos_apis.api"

LOGIN_PATH = "api/method/login"
LOGOUT_PATH = "api/method/logout"
LOGGED_USER_PATH = "api/method/frappe.auth.get_logged_user"

CUSTOMER_LIST_PATH = f"{METHOD_PREFIX}.customer.customer_list"
CUSTOMER_INSIGHTS_PATH = f"{METHOD_PREFIX}.customer.customer_amount_insights"
ITEM_WAREHOUSES_PATH = f"{METHOD_PREFIX}.product.item_stock_warehouse_list"
POS_PROFILE_PATH = f"{METHOD_PREFIX}.profile.get_pos_profile"
ORDER_CREATE_PATH = f"{METHOD_PREFIX}.order.create_order"
ORDER_EDIT_PATH = f"{METHOD_PREFIX}.order.edit_order"
ORDER_DETAILS_PATH = f"{METHOD_PREFIX}.order.get_sales_order_details"
ORDER_CONFIRMATION_PATH = f"{METHOD_PREFIX}.order.order_confirmation"
PAYMENT_CREATE_PATH = f"{METHOD_PREFIX}.order.create_payment_entry"
RETURN_AVAILABILITY_PATH = f"{METHOD_PREFIX}.order.get_return_availability"
RETURN_ORDER_PATH = f"{METHOD_PREFIX}.order.return_order"

CSRF_HEADER = "X-Frappe-CSRF-Token"

ACTION_LOG_TABLE = "pos_action_log"

FULLY_RETURNED_MARKERS = ("fully returned", "credit note issued")

PAYMENT_STATUS_CREDIT = "Credit Sale"
PAYMENT_STATUS_FULL = "Fully Paid"
PAYMENT_STATUS_PARTIAL = "Partially Paid"

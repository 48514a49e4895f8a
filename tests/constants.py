ADMIN_UID = "admin-uid-0001"
CUSTOMER_UID = "customer-uid-0001"
OTHER_CUSTOMER_UID = "customer-uid-0002"
BASE_URL = "http://test"

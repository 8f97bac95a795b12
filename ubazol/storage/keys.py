"""Persisted key names (shared with the mobile client's storage layout)."""


class StorageKeys:
    CART = "cartData"
    ORDERS = "orders"
    SAVED_ADDRESSES = "savedAddresses"
    DELIVERY_ADDRESS = "deliveryAddress"
    NOTIFICATIONS = "notifications"

    USER = "userData"
    FAVORITES = "favorites"
    LOYALTY_POINTS = "loyaltyPoints"
    BADGES = "badges"
    PREFERENCES = "preferences"

    # Removed on profile clear; preferences survive
    PROFILE_SESSION = (USER, FAVORITES, LOYALTY_POINTS, BADGES)

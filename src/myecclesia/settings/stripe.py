from decouple import config

DEFAULT_CURRENCY = config("DEFAULT_CURRENCY", default="GBP")
STRIPE_SECRET_KEY = config("STRIPE_SECRET_KEY", default="sk_test_...")
# Empty disables signature verification (local development only).
STRIPE_WEBHOOK_SECRET = config("STRIPE_WEBHOOK_SECRET", default="")
# Note: Stripe requires at least 30 minutes
CHECKOUT_SESSION_EXPIRY_MINUTES = config("CHECKOUT_SESSION_EXPIRY_MINUTES", cast=int, default=45)

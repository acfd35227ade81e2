from estategate.agents.subscription_expiry import app as subscription_expiry_app

__all__ = ["subscription_expiry_app"]

from .token_store import ConfirmationToken, ConfirmationTokenStore

__all__ = ["ConfirmationToken", "ConfirmationTokenStore"]

from escrowkit.tokens.token import Token

__all__ = ["Token"]

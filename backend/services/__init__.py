# Services are imported directly where needed, for example:
# from services.tokens import TokenManager
# from services.secret_gate import SecretAccessGate

__all__ = []

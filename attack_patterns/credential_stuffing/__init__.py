from .service import CredentialStuffingDetector

__all__ = ["CredentialStuffingDetector"]

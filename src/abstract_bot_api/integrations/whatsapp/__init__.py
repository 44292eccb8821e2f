from .adapter import whatsapp_business_endpoint, whatsapp_verification_endpoint
from .client import WhatsAppCloudClient

__all__ = [
    "WhatsAppCloudClient",
    "whatsapp_business_endpoint",
    "whatsapp_verification_endpoint",
]

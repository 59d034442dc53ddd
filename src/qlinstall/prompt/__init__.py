from .credentials import Credentials
from .gateway import PromptGateway, PromptKind

__all__ = ["Credentials", "PromptGateway", "PromptKind"]

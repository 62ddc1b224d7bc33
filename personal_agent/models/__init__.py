from .threads import Thread, Base
from .messages import Message, MessageRole
from .stores import Store, StoreType
from .documents import Document
from .memories import Memory

__all__ = ["Thread", "Message", "MessageRole", "Store", "StoreType", "Document", "Memory", "Base"]

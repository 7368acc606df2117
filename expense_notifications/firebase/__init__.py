from .firebase import FirebaseHandle, get_firebase

__all__ = ["FirebaseHandle", "get_firebase"]

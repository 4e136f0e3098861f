from friends_api.models.friend import Friend

__all__ = ["Friend"]

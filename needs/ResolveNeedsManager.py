"""
Contains the manager to resolve needs for needy objects.
"""

from needs.INeedRedisManager import INeedRedisManagerInterface
from redis_management.redis_manager import RedisManager
from support.constants import USE_REDIS_PUBLISH


class ResolveNeedsManager:
    """
    Manager to resolve needs for needy objects.
    """

    @staticmethod
    def resolve_needs(needy_instance: object, use_redis: bool = USE_REDIS_PUBLISH):
        """
        Resolve needs for the given needy object (instance of a class).
        Only works with instances, not classes.
        """
        if isinstance(needy_instance, type):
            raise ValueError(
                "resolve_needs() only works with instances, not classes. "
                f"Received class: {needy_instance.__name__}"
            )

        # Redis event publishing is opt-in
        if use_redis and INeedRedisManagerInterface in needy_instance.__class__.__mro__:
            needy_instance.redis_manager = RedisManager()

"""Access levels used to gate command execution."""
import enum

__all__ = ['AccessLevel', 'satisfies']


class AccessLevel(enum.IntEnum):
    """
    Ordered trust tiers.  A higher value implies every lower one.
    """
    NORMAL = 0
    VOICE = 1
    OPERATOR = 2
    ADMIN = 3
    ROOT = 4

    @classmethod
    def parse(cls, text):
        """
        Returns the level named by `text`, case-insensitive.

        :param text: Level name, e.g. "admin"
        :raises: :class:`ValueError` if there is no such level.
        """
        try:
            return cls[text.strip().upper()]
        except (KeyError, AttributeError):
            raise ValueError("{!r} is not a valid access level".format(text)) from None

    def __str__(self):
        return self.name


def satisfies(required, given):
    """
    Returns True if a user holding `given` may do something that requires `required`.

    :param required: Required :class:`AccessLevel`
    :param given: The user's :class:`AccessLevel`
    """
    return AccessLevel(given) >= AccessLevel(required)

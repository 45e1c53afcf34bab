"""Configuration constants.

Re-exports all constants for convenient importing:
    from qnabot.constants import APOLOGY_MESSAGE, NONE_OF_THE_ABOVE
"""

from qnabot.constants.dialog import *  # noqa: F403
from qnabot.constants.gateway import *  # noqa: F403

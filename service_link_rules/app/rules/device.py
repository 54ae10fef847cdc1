"""
Device classification from user-agent strings.
"""

import re
from typing import Optional

from .models import DeviceClass

# Tablets are checked first: Android tablets omit "Mobi" from their UA.
_TABLET_PATTERN = re.compile(r"(tablet|ipad|playbook|silk)|(android(?!.*mobi))", re.IGNORECASE)
_MOBILE_PATTERN = re.compile(
    r"Mobile|Android|iP(hone|od)|IEMobile|BlackBerry|Kindle|Silk-Accelerated|(hpw|web)OS|Opera M(obi|ini)"
)


def detect_device(user_agent: Optional[str]) -> DeviceClass:
    """Classify a user agent as mobile, tablet or desktop."""
    if not user_agent:
        return DeviceClass.DESKTOP

    if _TABLET_PATTERN.search(user_agent):
        return DeviceClass.TABLET

    if _MOBILE_PATTERN.search(user_agent):
        return DeviceClass.MOBILE

    return DeviceClass.DESKTOP

from typing import Optional, TypedDict

from user_agents import parse

class AgentInfo(TypedDict):
    mobile: bool
    device: str
    platform: str
    browser: str

def classify(user_agent: Optional[str]) -> AgentInfo:
    ua = parse(user_agent or "")
    return {
        "mobile": bool(ua.is_mobile or ua.is_tablet),
        "device": ua.device.family,
        "platform": ua.os.family,
        "browser": ua.browser.family,
    }

from __future__ import annotations

from datetime import datetime
from typing import Dict, Literal, Optional, Tuple
from urllib.parse import quote, urlparse

from quotecard.schemas import PosterContent

NAME_MAX_LENGTH = 60
QUOTE_MAX_LENGTH = 500

PosterExt = Literal["png", "jpeg", "jpg"]


def build_portrait_prompt(name: str) -> str:
    """Studio portrait prompt: half-length, 15° left turn, black backdrop."""

    return (
        f"一张高清晰度、逼真的{name}半身肖像，采用专业摄影棚人像风格。相机距离适中，头肩构图，"
        "脸部在画面中占比较大。相机角度：左15度侧面（拍摄对象向左转15度），自然四分之三视角，"
        "非正面。拍摄对象衣着完整，穿着与其公认的公众形象相匹配的服装（符合时代背景和职业特点），"
        "正装或经典服饰，衣物清晰可见。无裸露、无暴露、颈部以下无裸露皮肤。背景为纯黑色（#000000），"
        "干净简洁。灯光为电影级工作室灯光，伦勃朗式光线，高对比度。画面干净且具有精致美感。"
        f"拍摄对象必须与{name}相符，不得是卡通、机器人、标识、海报或纯文字图像。"
    )


def validate_poster_content(content: PosterContent) -> Tuple[bool, Dict[str, str]]:
    errors: Dict[str, str] = {}
    name = content.name.strip()
    quote_text = content.quote.replace("\r\n", "\n").strip()

    if not name:
        errors["name"] = "请输入名人"
    elif len(name) > NAME_MAX_LENGTH:
        errors["name"] = f"名人最长 {NAME_MAX_LENGTH} 字"

    if not quote_text:
        errors["quote"] = "请输入名言"
    elif len(quote_text) > QUOTE_MAX_LENGTH:
        errors["quote"] = f"名言最长 {QUOTE_MAX_LENGTH} 字"

    return not errors, errors


def create_poster_filename(ext: PosterExt = "png", date: Optional[datetime] = None) -> str:
    moment = date or datetime.now()
    return f"quote-{moment.strftime('%Y%m%d-%H%M%S')}.{ext}"


def export_image_url(url: Optional[str], origin: str) -> Optional[str]:
    """Route cross-origin portraits through ``/api/image`` so exports can rasterise them."""

    if not url:
        return None
    if url.startswith("data:"):
        return url
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return None
    if f"{parsed.scheme}://{parsed.netloc}" != origin.rstrip("/"):
        return f"/api/image?url={quote(url, safe='')}"
    return url

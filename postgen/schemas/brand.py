"""
Brand memory and product context injected into generation prompts.
"""
from typing import Optional

from pydantic import Field

from postgen.schemas.session import CamelModel


class BrandVoice(CamelModel):
    tone: str = ""
    writing_patterns: list[str] = Field(default_factory=list)


class BrandMemory(CamelModel):
    """Structured brand memory for AI content generation."""
    product_description: str
    niche: str = ""
    content_style: str = "professional"  # professional, casual, promotional, educational
    language: str = "vietnamese"  # vietnamese, english, bilingual
    brand_voice: BrandVoice = Field(default_factory=BrandVoice)
    cta_library: list[str] = Field(default_factory=list)
    key_points: list[str] = Field(default_factory=list)
    content_instruction: Optional[str] = None  # standing content rules for every post


class ProductContext(CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    detail: Optional[str] = None
    url: Optional[str] = None


DEFAULT_BRAND_MEMORY = BrandMemory(
    product_description="Premium fresh seafood from Cô Tô Island, delivered daily",
    niche="Fresh seafood, ocean-to-table quality",
    content_style="professional",
    language="vietnamese",
    brand_voice=BrandVoice(
        tone="warm, expert, trustworthy",
        writing_patterns=[
            "Kể chuyện người thật",
            "Ưu tiên thông tin chính xác",
            "Tránh quảng cáo thổi phồng",
        ],
    ),
    cta_library=[
        "Nhắn tin nhận giá tươi hôm nay",
        "Đặt hàng nhanh 60s",
        "Gọi ngay để được tư vấn",
    ],
    key_points=[
        "Đánh bắt trong ngày",
        "Vận chuyển 0-4 độ C",
        "Hoàn toàn không ướp đá",
        "Cam kết tươi sống",
    ],
)

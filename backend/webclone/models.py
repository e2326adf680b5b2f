"""Request, response and layout models shared by the capture and synthesis services."""

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from webclone.config import get_settings


class WireModel(BaseModel):
    """Accepts both python names and camelCase wire names."""

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Layout summary
# ---------------------------------------------------------------------------

class ElementStyles(WireModel):
    """The nine computed style properties captured for every element."""

    color: str = ""
    background: str = ""
    font_size: str = Field("", alias="fontSize")
    font_weight: str = Field("", alias="fontWeight")
    font_family: str = Field("", alias="fontFamily")
    border: str = ""
    margin: str = ""
    padding: str = ""
    display: str = ""


class ElementSnapshot(WireModel):
    tag: str
    text: str | None = None  # only buttons, headings and text blocks carry text
    html: str = ""
    styles: ElementStyles = Field(default_factory=ElementStyles)


class LayoutSummary(WireModel):
    navs: list[ElementSnapshot] = Field(default_factory=list)
    sections: list[ElementSnapshot] = Field(default_factory=list)
    buttons: list[ElementSnapshot] = Field(default_factory=list)
    headings: list[ElementSnapshot] = Field(default_factory=list)
    text_blocks: list[ElementSnapshot] = Field(default_factory=list, alias="textBlocks")

    def truncated(self, limit: int) -> "LayoutSummary":
        """Copy keeping at most ``limit`` entries per category, in order."""
        return LayoutSummary(
            navs=self.navs[:limit],
            sections=self.sections[:limit],
            buttons=self.buttons[:limit],
            headings=self.headings[:limit],
            text_blocks=self.text_blocks[:limit],
        )


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------

class CaptureRequest(WireModel):
    url: StrictStr
    wait_for_lazy_load: bool = Field(True, alias="waitForLazyLoad")
    max_wait_time: int = Field(
        default_factory=lambda: get_settings().page_load_timeout,
        alias="maxWaitTime",
        gt=0,
    )

    @field_validator("url")
    @classmethod
    def url_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("url must be a non-empty string")
        return v


class CaptureResult(WireModel):
    screenshot: str  # base64 PNG
    html: str
    css: str
    layout: LayoutSummary


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------

class SynthesisRequest(WireModel):
    layout: LayoutSummary
    screenshot: StrictStr = Field(min_length=1)
    api_key: str | None = Field(None, alias="apiKey")


class SynthesisResult(WireModel):
    html: str
    css: str
    raw: str = ""


class CloneResponse(BaseModel):
    html: str
    css: str


class ErrorResponse(BaseModel):
    error: str

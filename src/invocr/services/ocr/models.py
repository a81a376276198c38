"""
OCR Data Types.

Result types produced by one pipeline run and the immutable model
descriptions consumed by the inference backends.
"""

import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum


class Scene(Enum):
    """Coarse image category driving model and preprocessing selection."""

    DOCUMENT = "Document"
    ITEM_PHOTO = "ItemPhoto"


class Layout(Enum):
    """Structural category of the recognized content."""

    TABLE = "Table"
    TEXT_LABEL = "TextLabel"


def new_group_id() -> str:
    """Return a fresh id, unique within a pipeline run."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Box:
    """Axis-aligned detection box.

    The coordinate frame is set by whoever produced the box; every producer
    documents it.
    """

    left: float
    top: float
    right: float
    bottom: float
    score: float = 1.0

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def is_valid(self) -> bool:
        return self.right > self.left and self.bottom > self.top

    def to_list(self) -> list[float]:
        return [self.left, self.top, self.right, self.bottom]

    def offset(self, dx: float, dy: float) -> "Box":
        """Translate the box, e.g. from a crop frame into its parent frame."""
        return Box(self.left + dx, self.top + dy, self.right + dx, self.bottom + dy, self.score)


@dataclass(frozen=True)
class RecognizedText:
    """Text and mean character confidence from one recognizer call."""

    text: str
    confidence: float


@dataclass(frozen=True)
class ModelSpec:
    """Files and input geometry required by one backend configuration.

    Attributes:
        rec_model: Recognizer model asset path
        dict_path: Character dictionary asset path
        det_model: Optional detector model asset path
        cls_model: Optional text-direction classifier asset path
        input_height: Recognizer input height
        input_width: Recognizer input width
        det_input_size: Maximum side of the detector input
    """

    rec_model: str
    dict_path: str
    det_model: str | None = None
    cls_model: str | None = None
    input_height: int = 48
    input_width: int = 320
    det_input_size: int = 640

    def required_assets(self) -> list[str]:
        """All asset paths this spec needs, detector and classifier included."""
        assets = [self.rec_model, self.dict_path]
        if self.det_model:
            assets.append(self.det_model)
        if self.cls_model:
            assets.append(self.cls_model)
        return assets


# === Pipeline Output ===


@dataclass(frozen=True)
class Token:
    """One recognized span. ``box`` is ``[left, top, right, bottom]`` or empty."""

    text: str
    confidence: float
    box: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class Group:
    """User-editable unit of recognized text."""

    id: str
    tokens: list[Token]
    confidence: float
    box: list[float] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(token.text for token in self.tokens)


@dataclass(frozen=True)
class TableCell:
    """A recognized table cell with its grid coordinates."""

    id: str
    text: str
    confidence: float
    box: list[float]
    row_index: int | None = None
    col_index: int | None = None
    row_span: int = 1
    col_span: int = 1


@dataclass(frozen=True)
class ImageMeta:
    width: int
    height: int


@dataclass(frozen=True)
class BoundingBox:
    left: float
    top: float
    right: float
    bottom: float
    normalized: bool = False


@dataclass(frozen=True)
class OverlayItem:
    id: str
    text: str
    confidence: float
    box: BoundingBox


@dataclass(frozen=True)
class OverlayPayload:
    """Flat list of boxes and texts for drawing over the source image."""

    image: ImageMeta
    items: list[OverlayItem]


@dataclass(frozen=True)
class OcrResult:
    groups: list[Group] = field(default_factory=list)

    def to_overlay_payload(self, image: ImageMeta, normalized: bool = False) -> OverlayPayload:
        """Convert the groups into an overlay payload.

        Groups whose box does not have exactly four values are placed at
        the origin with a zero-size box.
        """
        items = []
        for group in self.groups:
            if len(group.box) == 4:
                left, top, right, bottom = group.box
                box = BoundingBox(left, top, right, bottom, normalized)
            else:
                box = BoundingBox(0.0, 0.0, 0.0, 0.0, normalized)
            items.append(OverlayItem(group.id, group.text, group.confidence, box))
        return OverlayPayload(image=image, items=items)


@dataclass(frozen=True)
class TableResult:
    cells: list[TableCell] = field(default_factory=list)


@dataclass(frozen=True)
class PipelineOutput:
    """Externally visible result of one pipeline run."""

    scene: Scene
    layout: Layout
    image: ImageMeta
    result: OcrResult
    table: TableResult | None = None

    @property
    def is_empty(self) -> bool:
        return not self.result.groups

    def to_dict(self) -> dict:
        """JSON-ready representation with enum values as strings."""
        data = asdict(self)
        data["scene"] = self.scene.value
        data["layout"] = self.layout.value
        return data


def empty_pipeline_output() -> PipelineOutput:
    """Well-formed output returned whenever a run produces nothing."""
    return PipelineOutput(
        scene=Scene.ITEM_PHOTO,
        layout=Layout.TEXT_LABEL,
        image=ImageMeta(0, 0),
        result=OcrResult([]),
        table=None,
    )


def merge_results(local: OcrResult, other: OcrResult) -> OcrResult:
    """Merge two recognition passes over the same image.

    Groups with the same token texts are collapsed into the one with the
    highest confidence (the earlier group wins ties). Groups keep the order
    in which their text first appeared.
    """
    best: dict[str, Group] = {}
    for group in [*local.groups, *other.groups]:
        key = ", ".join(token.text for token in group.tokens)
        current = best.get(key)
        if current is None or group.confidence > current.confidence:
            best[key] = group

    merged = []
    for group in best.values():
        group_id = group.id if group.id.strip() else new_group_id()
        merged.append(Group(group_id, group.tokens, group.confidence, group.box))
    return OcrResult(merged)

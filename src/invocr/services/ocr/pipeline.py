"""
OCR pipeline orchestrator.

One ``run`` takes an image file through loading, preprocessing, detection
and recognition and always returns a well-formed ``PipelineOutput``.
Cancellation is the only error that reaches the caller; anything else is
logged and turned into the empty output. Every raster created during the
run is released exactly once through the run's ``ImageLedger``.
"""

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from invocr.constants import MAX_IMAGE_DIMENSION
from invocr.utils.exceptions import OcrCancelledError

from .backend_base import OcrBackend
from .cancellation import check_cancelled
from .image_buffer import ImageBuffer, ImageLedger, crop_image, load_image
from .models import (
    Box,
    Group,
    ImageMeta,
    Layout,
    OcrResult,
    PipelineOutput,
    Scene,
    TableCell,
    TableResult,
    Token,
    empty_pipeline_output,
    new_group_id,
)
from .postprocess import build_word_groups
from .preprocessor import ImagePreprocessor
from .table_structure import assign_table_structure

if TYPE_CHECKING:
    from .aux_models import OnnxTableStructureDetector
    from .switcher import BackendModeProvider

logger = logging.getLogger(__name__)


def _reading_order(boxes: list[Box]) -> list[Box]:
    return sorted(boxes, key=lambda box: (box.top, box.left))


class OcrPipeline:
    """Runs the full OCR flow for one image at a time.

    A pipeline holds no per-run state, so one instance may serve several
    threads concurrently.

    Args:
        backend: Detection/recognition backend, normally a ``BackendSwitcher``
        preprocessor: Orientation, classification and enhancement stages
        table_structure: Table-cell detector used for table layouts
        max_image_dimension: Side above which images are sub-sampled on load
        mode_provider: Live backend-mode subscription closed by ``close()``
    """

    def __init__(
        self,
        backend: OcrBackend,
        preprocessor: ImagePreprocessor | None = None,
        table_structure: "OnnxTableStructureDetector | None" = None,
        max_image_dimension: int = MAX_IMAGE_DIMENSION,
        mode_provider: "BackendModeProvider | None" = None,
    ) -> None:
        self.backend = backend
        self.preprocessor = preprocessor or ImagePreprocessor()
        self.table_structure = table_structure
        self.max_image_dimension = max_image_dimension
        self.mode_provider = mode_provider

    def run(self, path: str | Path, cancel_event: threading.Event | None = None) -> PipelineOutput:
        """Recognize the text in an image file.

        Args:
            path: Image file path
            cancel_event: Set from another thread to stop the run between stages

        Returns:
            The pipeline output; the empty output when nothing was recognized
            or the run failed.

        Raises:
            OcrCancelledError: If ``cancel_event`` was set during the run
        """
        path = Path(path)
        name = path.name
        logger.debug(f"[{name}] Idle -> Loading")
        if not path.exists():
            logger.warning(f"Image not found: {path}")
            return empty_pipeline_output()

        ledger = ImageLedger()
        try:
            image = load_image(path, self.max_image_dimension)
            if image is None:
                return empty_pipeline_output()
            ledger.register(image)
            output = self._process(name, image, ledger, cancel_event)
            logger.debug(f"[{name}] -> Done ({len(output.result.groups)} groups)")
            return output
        except OcrCancelledError as e:
            logger.debug(f"[{name}] -> Failed: {e}")
            raise
        except Exception:
            logger.exception(f"OCR failed for {path}")
            return empty_pipeline_output()
        finally:
            released = ledger.release_all()
            logger.debug(f"[{name}] Released {released} image buffers")

    def close(self) -> None:
        if self.mode_provider is not None:
            self.mode_provider.close()

    # === Stages ===

    def _process(
        self,
        name: str,
        image: ImageBuffer,
        ledger: ImageLedger,
        cancel_event: threading.Event | None,
    ) -> PipelineOutput:
        check_cancelled(cancel_event, "loading")
        logger.debug(f"[{name}] Loading -> Preprocessing ({image.width}x{image.height})")
        pre = self.preprocessor.preprocess(image, ledger, cancel_event)
        enhanced = pre.enhanced

        logger.debug(f"[{name}] Preprocessing -> Detecting")
        detected = self.backend.detect(pre.scene, enhanced)
        check_cancelled(cancel_event, "detection")

        table_output = None
        if pre.layout == Layout.TABLE:
            logger.debug(f"[{name}] Detecting -> TableAssigning")
            table_output = self._build_table_result(pre.scene, enhanced, cancel_event)

        table = None
        if table_output is not None:
            result, table = table_output
        elif not detected:
            logger.debug(f"[{name}] Detecting -> Recognizing (whole image)")
            text_result = self.backend.infer(pre.scene, enhanced)
            if text_result is None:
                return empty_pipeline_output()
            result = build_word_groups(text_result, enhanced)
        else:
            logger.debug(f"[{name}] Detecting -> Recognizing ({len(detected)} boxes)")
            result = self._build_detected_result(pre.scene, enhanced, detected, cancel_event)

        return PipelineOutput(
            scene=pre.scene,
            layout=pre.layout,
            image=ImageMeta(enhanced.width, enhanced.height),
            result=result,
            table=table,
        )

    def _build_detected_result(
        self,
        scene: Scene,
        image: ImageBuffer,
        boxes: list[Box],
        cancel_event: threading.Event | None,
    ) -> OcrResult:
        """Recognize each detected box, in reading order."""
        groups = []
        for box in _reading_order(boxes):
            check_cancelled(cancel_event, "recognition")
            crop = crop_image(image, box.to_list())
            if crop is None:
                continue
            try:
                text_result = self.backend.infer(scene, crop)
            finally:
                crop.release()
            if text_result is None or not text_result.text.strip():
                continue
            token_box = box.to_list()
            token = Token(text_result.text, text_result.confidence, token_box)
            groups.append(Group(new_group_id(), [token], text_result.confidence, token_box))
        return OcrResult(groups)

    def _build_table_result(
        self,
        scene: Scene,
        image: ImageBuffer,
        cancel_event: threading.Event | None,
    ) -> tuple[OcrResult, TableResult] | None:
        """Recognize every table cell and assign grid coordinates.

        Returns:
            The token groups and the table, or None when no cell produced text.
        """
        if self.table_structure is None:
            return None
        cells = self.table_structure.detect_cells(image)
        if not cells:
            return None

        groups: list[Group] = []
        table_cells: list[TableCell] = []
        cell_boxes: list[Box] = []
        for cell_box in _reading_order(cells):
            check_cancelled(cancel_event, "table recognition")
            cell_crop = crop_image(image, cell_box.to_list())
            if cell_crop is None:
                continue
            try:
                tokens = self._recognize_cell(scene, cell_box, cell_crop, cancel_event)
            finally:
                cell_crop.release()
            if not tokens:
                continue

            groups.extend(
                Group(new_group_id(), [token], token.confidence, token.box) for token in tokens
            )
            table_cells.append(
                TableCell(
                    id=new_group_id(),
                    text="".join(token.text for token in tokens),
                    confidence=sum(token.confidence for token in tokens) / len(tokens),
                    box=cell_box.to_list(),
                )
            )
            cell_boxes.append(cell_box)

        if not table_cells:
            return None

        indices = assign_table_structure(cell_boxes)
        indexed = [
            TableCell(
                id=cell.id,
                text=cell.text,
                confidence=cell.confidence,
                box=cell.box,
                row_index=indices.row_index[i],
                col_index=indices.col_index[i],
                row_span=indices.row_span[i],
                col_span=indices.col_span[i],
            )
            for i, cell in enumerate(table_cells)
        ]
        return OcrResult(groups), TableResult(indexed)

    def _recognize_cell(
        self,
        scene: Scene,
        cell_box: Box,
        cell_crop: ImageBuffer,
        cancel_event: threading.Event | None,
    ) -> list[Token]:
        """Tokens of one cell with boxes in page coordinates."""
        inner_boxes = self.backend.detect(scene, cell_crop)
        if not inner_boxes:
            text_result = self.backend.infer(scene, cell_crop)
            if text_result is None or not text_result.text.strip():
                return []
            return [Token(text_result.text, text_result.confidence, cell_box.to_list())]

        tokens = []
        for inner in _reading_order(inner_boxes):
            check_cancelled(cancel_event, "table recognition")
            inner_crop = crop_image(cell_crop, inner.to_list())
            if inner_crop is None:
                continue
            try:
                text_result = self.backend.infer(scene, inner_crop)
            finally:
                inner_crop.release()
            if text_result is None or not text_result.text.strip():
                continue
            token_box = inner.offset(cell_box.left, cell_box.top).to_list()
            tokens.append(Token(text_result.text, text_result.confidence, token_box))
        return tokens

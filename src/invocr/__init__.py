"""
InvOcr - On-device OCR for inventory labels and documents

This package turns a photo of a label, document or table into structured,
position-annotated text using locally stored detection and recognition
models (OpenVINO or ONNX Runtime).
"""

__version__ = "1.0.0"
__author__ = "InvOcr Team"


def main(argv: list[str] | None = None) -> int:
    """Main entry point; runs the command line interface.

    Returns:
        The process exit code.
    """
    from invocr.cli import main as cli_main

    return cli_main(argv)

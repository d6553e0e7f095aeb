from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pdf2image import convert_from_path, pdfinfo_from_path
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError

from extraction.errors import ExtractionError

logger = logging.getLogger(__name__)

IMAGEMAGICK_BIN = "convert"


async def count_pages(pdf_path: Path) -> int:
    """
    Page count via poppler's `pdfinfo`. Falls back to 1 when the tool is
    missing or cannot read the document.
    """
    try:
        info = await asyncio.to_thread(pdfinfo_from_path, str(pdf_path))
        pages = int(info["Pages"])
    except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError, KeyError, ValueError, OSError) as e:
        logger.warning(f"Could not determine PDF page count, processing only the first page: {e}")
        return 1
    logger.info(f"PDF has {pages} pages")
    return pages


async def _render_with_imagemagick(pdf_path: Path, page_index: int, output_path: Path, dpi: int) -> None:
    proc = await asyncio.create_subprocess_exec(
        IMAGEMAGICK_BIN,
        "-density",
        str(dpi),
        "-quality",
        "100",
        f"{pdf_path}[{page_index}]",
        str(output_path),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await proc.communicate()
    if proc.returncode != 0 or not output_path.exists():
        raise OSError(f"{IMAGEMAGICK_BIN} exited with {proc.returncode}: {stderr.decode(errors='replace').strip()}")


async def _render_with_poppler(pdf_path: Path, page_index: int, output_dir: Path, dpi: int) -> Path:
    # pdf2image pages are 1-based
    paths = await asyncio.to_thread(
        convert_from_path,
        str(pdf_path),
        dpi=dpi,
        first_page=page_index + 1,
        last_page=page_index + 1,
        fmt="png",
        output_folder=str(output_dir),
        output_file=f"page-{page_index}",
        paths_only=True,
    )
    if not paths:
        raise ExtractionError(f"PDF page {page_index + 1} rendered no image")
    return Path(paths[0])


async def render_page(pdf_path: Path, page_index: int, output_dir: Path, dpi: int = 300) -> Path:
    """
    Rasterize one page (0-based) into `output_dir` and return the PNG path.
    ImageMagick is tried first; pdf2image/poppler is the fallback.
    """
    output_path = output_dir / f"{pdf_path.stem}-page-{page_index}.png"
    try:
        await _render_with_imagemagick(pdf_path, page_index, output_path, dpi)
        logger.info(f"PDF page {page_index + 1} converted using ImageMagick")
        return output_path
    except OSError as e:
        logger.warning(f"ImageMagick convert failed, falling back to pdf2image: {e}")

    try:
        path = await _render_with_poppler(pdf_path, page_index, output_dir, dpi)
    except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError, OSError) as e:
        raise ExtractionError(f"Failed to convert PDF page {page_index + 1} to image: {e}") from e
    logger.info(f"PDF page {page_index + 1} converted using pdf2image")
    return path

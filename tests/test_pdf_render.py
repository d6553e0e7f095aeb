import asyncio
from pathlib import Path

import pytest
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError

from extraction import pdf_render
from extraction.errors import ExtractionError

MISSING_BINARY = "imagemagick-convert-that-is-not-installed"


@pytest.fixture
def pdf_path(tmp_path):
    path = tmp_path / "statement.pdf"
    path.write_bytes(b"not really a pdf")
    return path


class FakeProcess:
    def __init__(self, returncode: int, stderr: bytes = b"") -> None:
        self.returncode = returncode
        self._stderr = stderr

    async def communicate(self):
        return b"", self._stderr


@pytest.mark.asyncio
async def test_count_pages_reads_pdfinfo(monkeypatch, pdf_path):
    monkeypatch.setattr(pdf_render, "pdfinfo_from_path", lambda path: {"Pages": 7})

    assert await pdf_render.count_pages(pdf_path) == 7


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [PDFPageCountError("Unable to get page count"), PDFInfoNotInstalledError("pdfinfo missing"), OSError("io")],
)
async def test_count_pages_falls_back_to_one(monkeypatch, pdf_path, error):
    def broken_pdfinfo(path):
        raise error

    monkeypatch.setattr(pdf_render, "pdfinfo_from_path", broken_pdfinfo)

    assert await pdf_render.count_pages(pdf_path) == 1


@pytest.mark.asyncio
async def test_count_pages_without_pages_key(monkeypatch, pdf_path):
    monkeypatch.setattr(pdf_render, "pdfinfo_from_path", lambda path: {})

    assert await pdf_render.count_pages(pdf_path) == 1


@pytest.mark.asyncio
async def test_render_uses_imagemagick_first(monkeypatch, pdf_path, tmp_path):
    calls = []

    async def fake_exec(*args, **kwargs):
        calls.append(args)
        Path(args[-1]).write_bytes(b"png")
        return FakeProcess(0)

    def poppler_must_not_run(*args, **kwargs):
        raise AssertionError("pdf2image should not be used when ImageMagick succeeds")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    monkeypatch.setattr(pdf_render, "convert_from_path", poppler_must_not_run)

    out = await pdf_render.render_page(pdf_path, 2, tmp_path, dpi=300)

    assert out.exists()
    assert out.parent == tmp_path
    [args] = calls
    assert args[:5] == (pdf_render.IMAGEMAGICK_BIN, "-density", "300", "-quality", "100")
    assert args[5] == f"{pdf_path}[2]"


@pytest.mark.asyncio
async def test_render_falls_back_to_pdf2image_when_imagemagick_missing(monkeypatch, pdf_path, tmp_path):
    seen = {}

    def fake_convert(path, **kwargs):
        seen.update(kwargs)
        out = Path(kwargs["output_folder"]) / f"{kwargs['output_file']}.png"
        out.write_bytes(b"png")
        return [str(out)]

    monkeypatch.setattr(pdf_render, "IMAGEMAGICK_BIN", MISSING_BINARY)
    monkeypatch.setattr(pdf_render, "convert_from_path", fake_convert)

    out = await pdf_render.render_page(pdf_path, 0, tmp_path, dpi=150)

    assert out.exists()
    assert out.parent == tmp_path
    assert seen["first_page"] == 1
    assert seen["last_page"] == 1
    assert seen["dpi"] == 150
    assert seen["paths_only"] is True


@pytest.mark.asyncio
async def test_render_falls_back_when_imagemagick_exits_nonzero(monkeypatch, pdf_path, tmp_path):
    async def failing_exec(*args, **kwargs):
        return FakeProcess(1, b"convert: no images defined")

    def fake_convert(path, **kwargs):
        out = Path(kwargs["output_folder"]) / "page.png"
        out.write_bytes(b"png")
        return [str(out)]

    monkeypatch.setattr(asyncio, "create_subprocess_exec", failing_exec)
    monkeypatch.setattr(pdf_render, "convert_from_path", fake_convert)

    out = await pdf_render.render_page(pdf_path, 0, tmp_path)

    assert out == tmp_path / "page.png"


@pytest.mark.asyncio
async def test_render_raises_when_both_renderers_fail(monkeypatch, pdf_path, tmp_path):
    def broken_convert(path, **kwargs):
        raise PDFPageCountError("Unable to get page count")

    monkeypatch.setattr(pdf_render, "IMAGEMAGICK_BIN", MISSING_BINARY)
    monkeypatch.setattr(pdf_render, "convert_from_path", broken_convert)

    with pytest.raises(ExtractionError) as exc:
        await pdf_render.render_page(pdf_path, 0, tmp_path)

    assert str(exc.value).startswith("Failed to convert PDF page 1 to image")


@pytest.mark.asyncio
async def test_render_raises_when_pdf2image_returns_nothing(monkeypatch, pdf_path, tmp_path):
    monkeypatch.setattr(pdf_render, "IMAGEMAGICK_BIN", MISSING_BINARY)
    monkeypatch.setattr(pdf_render, "convert_from_path", lambda path, **kwargs: [])

    with pytest.raises(ExtractionError):
        await pdf_render.render_page(pdf_path, 0, tmp_path)

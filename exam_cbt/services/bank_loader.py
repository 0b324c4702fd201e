"""
services/bank_loader.py

문제은행 원문 로딩.
Public API:
  - load_bank_text(difficulty) -> str                  : 난이도별 문제은행 파일 읽기
  - decode_bank_upload(filename, file_bytes) -> str    : 업로드 파일(.md/.txt/.pdf) → 텍스트
  - extract_pdf_text(file_bytes) -> str                : PDF 텍스트 레이어 추출
"""

import logging
import os

import fitz  # PyMuPDF

from config import BANK_FILES, MAX_PDF_PAGES

logger = logging.getLogger(__name__)


class QuestionBankNotFoundError(LookupError):
    """난이도에 해당하는 문제은행 파일이 없을 때."""


def load_bank_text(difficulty: str) -> str:
    """
    난이도(basic / applied)에 해당하는 문제은행 파일을 읽어 반환한다.

    Raises:
        QuestionBankNotFoundError: 알 수 없는 난이도이거나 파일이 없는 경우.
    """
    path = BANK_FILES.get(difficulty)
    if not path:
        raise QuestionBankNotFoundError(f"알 수 없는 난이도입니다: {difficulty!r}")
    if not os.path.exists(path):
        logger.error(f"문제은행 파일 없음: {path}")
        raise QuestionBankNotFoundError(f"문제은행 파일을 찾을 수 없습니다: {os.path.basename(path)}")

    # BOM 이 붙은 파일도 그대로 처리
    with open(path, "r", encoding="utf-8-sig") as f:
        text = f.read()
    logger.info(f"문제은행 로드: {difficulty} ({len(text)}자)")
    return text


def decode_bank_upload(filename: str, file_bytes: bytes) -> str:
    """
    업로드된 문제은행 파일을 텍스트로 변환.

    Raises:
        ValueError: 빈 파일이거나 UTF-8 로 해석할 수 없는 경우.
    """
    if not file_bytes:
        raise ValueError("업로드된 파일이 비어 있습니다.")

    if (filename or "").lower().endswith(".pdf") or file_bytes[:5] == b"%PDF-":
        return extract_pdf_text(file_bytes)

    try:
        return file_bytes.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValueError(f"UTF-8 텍스트 파일이 아닙니다: {e.reason}") from e


def extract_pdf_text(file_bytes: bytes) -> str:
    """PDF 바이트 → 페이지 순서대로 이어 붙인 텍스트."""
    doc = None
    try:
        try:
            doc = fitz.open(stream=file_bytes, filetype="pdf")
        except Exception as e:
            logger.error(f"extract_pdf_text: PDF 열기 실패 - {e}")
            raise ValueError("PDF 파일을 열 수 없습니다.") from e

        if len(doc) > MAX_PDF_PAGES:
            raise ValueError(
                f"PDF 페이지가 너무 많습니다 ({len(doc)}페이지). 최대 {MAX_PDF_PAGES}페이지까지 지원합니다."
            )

        pages = [doc.load_page(i).get_text() for i in range(len(doc))]
        logger.info(f"extract_pdf_text: {len(pages)}페이지 텍스트 추출")
        return "\n".join(pages)
    finally:
        if doc is not None:
            doc.close()

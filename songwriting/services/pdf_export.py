from __future__ import annotations

from io import BytesIO

from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

from songwriting.models import SongDocument
from songwriting.services.chord_sheet import build_chord_sheet


def build_song_pdf(song: SongDocument, year: int | None = None) -> bytes:
    # Base-14 fonts have no sharp/flat glyphs, so chord names stay in ASCII here.
    sheet = build_chord_sheet(song, year=year, pretty=False)
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    c.setTitle(sheet.title)
    c.setAuthor(sheet.author)
    _, height = letter

    def draw_header(title: str) -> float:
        c.setFont("Helvetica-Bold", 16)
        c.drawString(0.75 * inch, height - 0.8 * inch, title)
        c.setFont("Helvetica", 10)
        c.drawString(0.75 * inch, height - 1.05 * inch, f"by {sheet.author}")
        c.drawString(0.75 * inch, height - 1.25 * inch, sheet.meta_line)
        return height - 1.6 * inch

    def ensure_room(y: float, needed: float) -> float:
        if y - needed >= 1.0 * inch:
            return y
        c.showPage()
        return draw_header(f"{sheet.title} (cont.)")

    y = draw_header(sheet.title)
    if not sheet.sections:
        c.setFont("Helvetica", 10)
        c.drawString(0.75 * inch, y, "No sections added yet.")
        y -= 0.2 * inch

    for section in sheet.sections:
        y = ensure_room(y, 0.5 * inch)
        c.setFont("Helvetica-Bold", 11)
        c.drawString(0.75 * inch, y, section.label)
        y -= 0.22 * inch
        for line in section.lines:
            y = ensure_room(y, 0.36 * inch)
            # Courier keeps chord columns aligned with lyric characters.
            if line.chords:
                c.setFont("Courier-Bold", 9)
                c.drawString(0.9 * inch, y, line.chords)
                y -= 0.15 * inch
            c.setFont("Courier", 9)
            c.drawString(0.9 * inch, y, line.lyrics)
            y -= 0.2 * inch
        y -= 0.1 * inch

    c.setFont("Helvetica", 8)
    c.drawString(0.75 * inch, 0.6 * inch, sheet.copyright)
    c.showPage()
    c.save()
    buffer.seek(0)
    return buffer.read()

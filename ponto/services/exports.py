from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from io import BytesIO
from zoneinfo import ZoneInfo

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from ponto.services.formatting import (
    format_clock,
    format_date,
    format_date_with_weekday,
    format_hours,
    format_minutes,
    month_name,
)
from ponto.services.reports import MonthlyReport
from ponto.services.timecalc import PunchEvent, PunchKind, ReportDayView
from ponto.settings import get_attendance_timezone, get_settings

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MEDIA_TYPE = "application/pdf"

DAILY_HEADERS = [
    "Data",
    "Horários",
    "Horas Trabalhadas",
    "Horas Extras",
    "Status",
    "Ajustado",
]

DECLARATION_LINES = (
    "Declaro que conferi todos os horários registrados neste relatório e que",
    "os mesmos correspondem fielmente aos dias e horários efetivamente trabalhados",
    "no período especificado.",
)

HEADER_FILL = PatternFill(fill_type="solid", fgColor="1F3A5F")
META_LABEL_FILL = PatternFill(fill_type="solid", fgColor="EAF1F8")
META_VALUE_FILL = PatternFill(fill_type="solid", fgColor="F8FBFF")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F5F8FC")
WARNING_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")
SUCCESS_FILL = PatternFill(fill_type="solid", fgColor="E6F4EA")
SUMMARY_FILL = PatternFill(fill_type="solid", fgColor="E9F1F7")

HEADER_FONT = Font(bold=True, color="FFFFFF")
BOLD_FONT = Font(bold=True, color="0F172A")
TITLE_FONT = Font(bold=True, color="1F3A5F", size=14)
MUTED_FONT = Font(color="334155")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)

PDF_HEADER_COLOR = colors.HexColor("#1F3A5F")
PDF_ZEBRA_COLOR = colors.HexColor("#F5F8FC")
PDF_TEXT_COLOR = colors.HexColor("#0F172A")


def _minutes_to_hhmm(minutes: int) -> str:
    value = max(0, int(minutes))
    return f"{value // 60:02d}:{value % 60:02d}"


def _punches_label(punches: Sequence[PunchEvent], tz: ZoneInfo) -> str:
    if not punches:
        return "-"
    parts = []
    for event in punches:
        label = "Entrada" if event.kind == PunchKind.IN else "Saída"
        parts.append(f"{label}: {format_clock(event.occurred_at, tz)}")
    return " | ".join(parts)


def _status_label(day: ReportDayView) -> str:
    return "Completo" if day.is_complete else "Incompleto"


def _period_label(report: MonthlyReport) -> str:
    return f"{month_name(report.month)} de {report.year}"


def _summary_rows(report: MonthlyReport) -> list[tuple[str, str]]:
    summary = report.summary
    return [
        ("Período", _period_label(report)),
        ("Total de Horas Trabalhadas", format_minutes(summary.total_worked_minutes)),
        ("Dias Trabalhados", str(report.days_worked)),
        ("Dias com Registro", str(report.days_with_records)),
        ("Dias com Horas Extras", str(report.days_with_overtime)),
        ("Total de Horas Extras", format_hours(summary.total_overtime_hours)),
        ("Média Diária", format_minutes(summary.average_worked_minutes)),
    ]


def _style_header(ws: Worksheet, row: int = 1) -> None:
    for cell in ws[row]:
        if cell.value is None:
            continue
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            if cell.coordinate in ws.merged_cells:
                continue
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 60)


def _merge_title(ws: Worksheet, row: int, text: str) -> None:
    ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=len(DAILY_HEADERS))
    cell = ws.cell(row=row, column=1, value=text)
    cell.font = TITLE_FONT
    cell.alignment = Alignment(horizontal="left", vertical="center")


def _style_metadata_rows(ws: Worksheet, *, start_row: int, end_row: int) -> None:
    for row_idx in range(start_row, end_row + 1):
        label_cell = ws.cell(row=row_idx, column=1)
        value_cell = ws.cell(row=row_idx, column=2)
        label_cell.font = BOLD_FONT
        label_cell.fill = META_LABEL_FILL
        label_cell.alignment = Alignment(horizontal="left", vertical="center")
        label_cell.border = THIN_BORDER

        value_cell.font = MUTED_FONT
        value_cell.fill = META_VALUE_FILL
        value_cell.alignment = Alignment(horizontal="left", vertical="center")
        value_cell.border = THIN_BORDER


def _style_daily_rows(ws: Worksheet, *, header_row: int, data_start_row: int, data_end_row: int) -> None:
    ws.freeze_panes = f"A{header_row + 1}"
    if data_end_row < data_start_row:
        return
    ws.auto_filter.ref = f"A{header_row}:{get_column_letter(len(DAILY_HEADERS))}{data_end_row}"

    status_col = DAILY_HEADERS.index("Status") + 1
    overtime_col = DAILY_HEADERS.index("Horas Extras") + 1
    for row_idx in range(data_start_row, data_end_row + 1):
        incomplete = ws.cell(row=row_idx, column=status_col).value == "Incompleto"
        row_fill = WARNING_FILL if incomplete else (ZEBRA_FILL if row_idx % 2 == 0 else None)
        for col_idx in range(1, len(DAILY_HEADERS) + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = THIN_BORDER
            if row_fill is not None:
                cell.fill = row_fill
            horizontal = "left" if col_idx == 2 else "center"
            cell.alignment = Alignment(horizontal=horizontal, vertical="center")

        overtime_cell = ws.cell(row=row_idx, column=overtime_col)
        if overtime_cell.value not in {None, "", "00:00"}:
            overtime_cell.fill = SUCCESS_FILL
            overtime_cell.font = Font(bold=True, color="166534")


def _append_summary_area(ws: Worksheet, report: MonthlyReport) -> None:
    ws.append([])
    summary_start = ws.max_row + 1
    ws.append(["Resumo do Mês", "Valor"])
    for label, value in _summary_rows(report):
        ws.append([label, value])
    _style_header(ws, summary_start)

    for row_idx in range(summary_start + 1, ws.max_row + 1):
        label_cell = ws.cell(row=row_idx, column=1)
        value_cell = ws.cell(row=row_idx, column=2)
        label_cell.fill = SUMMARY_FILL
        label_cell.border = THIN_BORDER
        label_cell.font = BOLD_FONT
        value_cell.fill = META_VALUE_FILL
        value_cell.border = THIN_BORDER
        value_cell.alignment = Alignment(horizontal="center", vertical="center")


def _safe_sheet_title(title: str, fallback: str) -> str:
    cleaned = "".join(ch for ch in title if ch not in ['\\', '/', '*', '?', ':', '[', ']']).strip()
    if not cleaned:
        cleaned = fallback
    return cleaned[:31]


def build_monthly_report_xlsx_bytes(report: MonthlyReport) -> bytes:
    settings = get_settings()
    tz = get_attendance_timezone()
    employee = report.employee

    wb = Workbook()
    ws = wb.active
    ws.title = _safe_sheet_title(f"{report.year}-{report.month:02d}", "Relatorio")

    _merge_title(ws, 1, "RELATÓRIO MENSAL DE PONTO")
    ws.append(["Empresa", settings.company_name])
    ws.append(["Funcionário", employee.full_name])
    ws.append(["CPF", employee.cpf])
    ws.append(["Departamento", employee.department or "-"])
    ws.append(["Período", _period_label(report)])
    ws.append(["Gerado em (UTC)", datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")])
    _style_metadata_rows(ws, start_row=2, end_row=ws.max_row)
    ws.append([])

    header_row = ws.max_row + 1
    ws.append(DAILY_HEADERS)
    _style_header(ws, header_row)

    data_start_row = header_row + 1
    for day in report.days:
        ws.append(
            [
                day.day,
                _punches_label(day.punches, tz),
                _minutes_to_hhmm(day.worked_minutes),
                _minutes_to_hhmm(day.overtime_minutes),
                _status_label(day),
                "Sim" if day.adjusted else "Não",
            ]
        )
    data_end_row = ws.max_row
    for row in ws.iter_rows(min_row=data_start_row, max_row=data_end_row, max_col=1):
        row[0].number_format = "dd/mm/yyyy"

    _style_daily_rows(ws, header_row=header_row, data_start_row=data_start_row, data_end_row=data_end_row)
    _append_summary_area(ws, report)
    _auto_width(ws)

    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()


class _PdfWriter:
    """Top-down cursor over a reportlab canvas that starts a new page when space runs out."""

    margin = 15 * mm
    line_height = 6 * mm

    def __init__(self, stream: BytesIO):
        self.canvas = canvas.Canvas(stream, pagesize=A4)
        self.width, self.height = A4
        self.y = self.height - self.margin

    def ensure_space(self, needed: float) -> None:
        if self.y - needed < self.margin:
            self.canvas.showPage()
            self.y = self.height - self.margin

    def heading(self, text: str, *, size: int = 12) -> None:
        self.ensure_space(self.line_height * 2)
        self.y -= self.line_height
        self.canvas.setFillColor(PDF_HEADER_COLOR)
        self.canvas.setFont("Helvetica-Bold", size)
        self.canvas.drawString(self.margin, self.y, text)
        self.y -= 2 * mm

    def line(self, text: str, *, bold: bool = False, indent: float = 5 * mm) -> None:
        self.ensure_space(self.line_height)
        self.y -= self.line_height
        self.canvas.setFillColor(PDF_TEXT_COLOR)
        self.canvas.setFont("Helvetica-Bold" if bold else "Helvetica", 10)
        self.canvas.drawString(self.margin + indent, self.y, text)

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]], widths: Sequence[float]) -> None:
        row_height = 6 * mm
        self._table_row(headers, widths, row_height, header=True)
        for index, row in enumerate(rows):
            if self.y - row_height < self.margin:
                self.canvas.showPage()
                self.y = self.height - self.margin
                self._table_row(headers, widths, row_height, header=True)
            self._table_row(row, widths, row_height, zebra=index % 2 == 1)

    def _table_row(
        self,
        values: Sequence[str],
        widths: Sequence[float],
        row_height: float,
        *,
        header: bool = False,
        zebra: bool = False,
    ) -> None:
        self.ensure_space(row_height)
        self.y -= row_height
        total_width = sum(widths)
        if header or zebra:
            self.canvas.setFillColor(PDF_HEADER_COLOR if header else PDF_ZEBRA_COLOR)
            self.canvas.rect(self.margin, self.y, total_width, row_height, stroke=0, fill=1)
        self.canvas.setFillColor(colors.white if header else PDF_TEXT_COLOR)
        self.canvas.setFont("Helvetica-Bold" if header else "Helvetica", 8)
        x = self.margin
        for value, width in zip(values, widths):
            self.canvas.drawString(x + 1.5 * mm, self.y + 2 * mm, value)
            x += width

    def signature_block(self) -> None:
        self.ensure_space(35 * mm)
        self.y -= 25 * mm
        block_width = (self.width - 2 * self.margin - 20 * mm) / 2
        for left, label in (
            (self.margin, "Assinatura do Funcionário"),
            (self.margin + block_width + 20 * mm, "Assinatura da Empresa"),
        ):
            center = left + block_width / 2
            self.canvas.setStrokeColor(PDF_TEXT_COLOR)
            self.canvas.line(left, self.y, left + block_width, self.y)
            self.canvas.setFillColor(PDF_TEXT_COLOR)
            self.canvas.setFont("Helvetica", 9)
            self.canvas.drawCentredString(center, self.y - 5 * mm, label)
            self.canvas.drawCentredString(center, self.y - 10 * mm, "___/___/______")
        self.y -= 12 * mm

    def footer(self, issued_on: str) -> None:
        self.canvas.setFillColor(colors.grey)
        self.canvas.setFont("Helvetica", 8)
        center = self.width / 2
        self.canvas.drawCentredString(center, 12 * mm, "Relatório gerado automaticamente pelo Sistema de Ponto")
        self.canvas.drawCentredString(center, 8 * mm, f"Data de emissão: {issued_on}")

    def finish(self) -> None:
        self.canvas.showPage()
        self.canvas.save()


def _pdf_daily_rows(report: MonthlyReport, tz: ZoneInfo) -> list[list[str]]:
    return [
        [
            format_date_with_weekday(day.day),
            _punches_label(day.punches, tz),
            format_minutes(day.worked_minutes),
            format_minutes(day.overtime_minutes) if day.overtime_minutes > 0 else "-",
            _status_label(day),
        ]
        for day in report.days
    ]


def build_monthly_report_pdf_bytes(report: MonthlyReport) -> bytes:
    settings = get_settings()
    tz = get_attendance_timezone()
    employee = report.employee

    stream = BytesIO()
    pdf = _PdfWriter(stream)
    pdf.canvas.setTitle(f"Relatorio {employee.cpf} {report.year}-{report.month:02d}")

    pdf.canvas.setFillColor(PDF_HEADER_COLOR)
    pdf.canvas.setFont("Helvetica-Bold", 16)
    pdf.canvas.drawCentredString(pdf.width / 2, pdf.y - 5 * mm, settings.company_name)
    pdf.y -= 10 * mm
    pdf.heading("Relatório Mensal", size=14)

    pdf.heading("DADOS DO EMPREGADOR")
    pdf.line(f"Empresa: {settings.company_name}")
    if settings.company_document:
        pdf.line(f"CNPJ: {settings.company_document}")
    if settings.company_address:
        pdf.line(f"Endereço: {settings.company_address}")

    pdf.heading("DADOS DO EMPREGADO")
    pdf.line(f"Nome: {employee.full_name}")
    pdf.line(f"CPF: {employee.cpf}")
    if employee.department:
        pdf.line(f"Departamento: {employee.department}")

    pdf.heading("RESUMO MÊS")
    pdf.table(["Descrição", "Valor"], _summary_rows(report), [120 * mm, 60 * mm])

    pdf.heading("DETALHAMENTO DIÁRIO", size=14)
    pdf.table(
        ["Data", "Horários", "Horas Trab.", "Extras", "Status"],
        _pdf_daily_rows(report, tz),
        [38 * mm, 92 * mm, 18 * mm, 14 * mm, 18 * mm],
    )

    pdf.heading("DECLARAÇÃO E ASSINATURA")
    for text in DECLARATION_LINES:
        pdf.line(text, indent=0)
    pdf.signature_block()
    pdf.footer(format_date(datetime.now(tz).date()))
    pdf.finish()
    return stream.getvalue()

# Overview: PDF renderings of bills and reports, built from plain dicts with reportlab.

from __future__ import annotations

from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Paragraph, Table, TableStyle, Spacer


GRID_STYLE = TableStyle([
    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
    ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
    ("TOPPADDING", (0, 0), (-1, -1), 4),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
])


def _money(value) -> str:
    return f"{(value or 0):,.2f}"


def _styles():
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name="Right", parent=styles["Normal"], alignment=TA_RIGHT))
    return styles


def _build(elements: list) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=40,
        leftMargin=40,
        topMargin=40,
        bottomMargin=40,
    )
    doc.build(elements)
    return buffer.getvalue()


def _table(rows: list[list], col_widths: list[int]) -> Table:
    table = Table(rows, colWidths=col_widths, repeatRows=1)
    table.setStyle(GRID_STYLE)
    return table


def render_bill(bill: dict, business_name: str) -> bytes:
    """Invoice for one bill (the dict produced by Bill.to_dict())."""
    styles = _styles()
    elements = [
        Paragraph(f"<b>{escape(business_name)}</b>", styles["Title"]),
        Paragraph(
            f"<b>INVOICE</b><br/>"
            f"Bill No: {escape(bill['bill_number'])}<br/>"
            f"Date: {escape(bill.get('created_at') or '-')}<br/>"
            f"Payment: {escape(bill['payment_method'])} ({escape(bill['payment_status'])})",
            styles["Right"],
        ),
        Spacer(1, 15),
    ]

    customer = bill.get("customer") or {}
    vehicle = customer.get("vehicle_info") or {}
    if customer.get("name") or vehicle.get("license_plate"):
        elements.append(Paragraph("<b>Customer</b>", styles["Heading2"]))
        lines = []
        if customer.get("name"):
            lines.append(f"Name: {escape(customer['name'])}")
        if customer.get("phone"):
            lines.append(f"Phone: {escape(customer['phone'])}")
        if vehicle.get("license_plate"):
            lines.append(f"License Plate: {escape(vehicle['license_plate'])}")
        if vehicle.get("make"):
            described = " ".join(str(v) for v in (vehicle.get("make"), vehicle.get("model"), vehicle.get("year")) if v)
            lines.append(f"Vehicle: {escape(described)}")
        elements.append(Paragraph("<br/>".join(lines), styles["Normal"]))
        elements.append(Spacer(1, 15))

    for section in ("services", "products"):
        items = bill.get(section) or []
        if not items:
            continue
        elements.append(Paragraph(f"<b>{section.capitalize()}</b>", styles["Heading2"]))
        rows = [["Item", "Qty", "Price", "Total"]]
        rows.extend(
            [item["name"], item["quantity"], _money(item["price"]), _money(item["total"])]
            for item in items
        )
        elements.append(_table(rows, [250, 50, 100, 100]))
        elements.append(Spacer(1, 10))

    totals = [
        ["Subtotal", _money(bill["subtotal"])],
        [f"Tax ({bill['tax_rate'] * 100:.1f}%)", _money(bill["tax_amount"])],
    ]
    if bill.get("discount"):
        totals.append(["Discount", f"-{_money(bill['discount'])}"])
    totals.append(["Total", _money(bill["total"])])

    totals_table = Table(totals, colWidths=[400, 100])
    totals_table.setStyle(TableStyle([
        ("ALIGN", (0, 0), (-1, -1), "RIGHT"),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("LINEABOVE", (0, -1), (-1, -1), 1, colors.black),
    ]))
    elements.append(totals_table)

    if bill.get("notes"):
        elements.append(Spacer(1, 15))
        elements.append(Paragraph(f"Notes: {escape(bill['notes'])}", styles["Normal"]))

    elements.append(Spacer(1, 25))
    elements.append(Paragraph("Thank you for your business!", styles["Normal"]))
    return _build(elements)


def render_daily_report(report: dict, business_name: str) -> bytes:
    styles = _styles()
    elements = [
        Paragraph(f"<b>{escape(business_name)}</b>", styles["Title"]),
        Paragraph(f"Daily Sales Report: {escape(report['date'])}", styles["Heading2"]),
        Paragraph(
            f"Total Bills: {report['total_bills']}<br/>"
            f"Total Amount: {_money(report['total_amount'])}",
            styles["Normal"],
        ),
        Spacer(1, 15),
    ]

    if report["services_array"]:
        elements.append(Paragraph("<b>Services</b>", styles["Heading2"]))
        rows = [["Service", "Category", "Count", "Total"]]
        rows.extend([s["name"], s["category"], s["count"], _money(s["total"])] for s in report["services_array"])
        rows.append(["Services Total", "", "", _money(report["services_total"])])
        elements.append(_table(rows, [200, 100, 80, 120]))
        elements.append(Spacer(1, 10))

    if report["products_array"]:
        elements.append(Paragraph("<b>Products</b>", styles["Heading2"]))
        rows = [["Product", "Category", "Quantity", "Total"]]
        rows.extend([p["name"], p["category"], p["quantity"], _money(p["total"])] for p in report["products_array"])
        rows.append(["Products Total", "", "", _money(report["products_total"])])
        elements.append(_table(rows, [200, 100, 80, 120]))
        elements.append(Spacer(1, 10))

    elements.append(Paragraph("<b>Payment Methods</b>", styles["Heading2"]))
    rows = [["Method", "Bills"]] + [[k, v] for k, v in report["payment_methods"].items()]
    elements.append(_table(rows, [200, 100]))
    elements.append(Spacer(1, 10))

    elements.append(Paragraph("<b>Payment Status</b>", styles["Heading2"]))
    rows = [["Status", "Bills"]] + [[k, v] for k, v in report["payment_status"].items()]
    elements.append(_table(rows, [200, 100]))

    return _build(elements)


def render_inventory_report(report: dict, business_name: str) -> bytes:
    styles = _styles()
    elements = [
        Paragraph(f"<b>{escape(business_name)}</b>", styles["Title"]),
        Paragraph("Inventory Report", styles["Heading2"]),
        Paragraph(
            f"Products: {report['total_products']}<br/>"
            f"Total Value: {_money(report['total_value'])}<br/>"
            f"Low Stock: {report['low_stock_count']}<br/>"
            f"Out of Stock: {report['out_of_stock_count']}",
            styles["Normal"],
        ),
        Spacer(1, 15),
    ]

    if report["categories"]:
        elements.append(Paragraph("<b>Categories</b>", styles["Heading2"]))
        rows = [["Category", "Products", "Value"]]
        rows.extend([c["name"], c["count"], _money(c["value"])] for c in report["categories"])
        elements.append(_table(rows, [200, 100, 120]))
        elements.append(Spacer(1, 10))

    if report["products"]:
        elements.append(Paragraph("<b>Products</b>", styles["Heading2"]))
        rows = [["Product", "Category", "Stock", "Price", "Value", "Status"]]
        rows.extend(
            [p["name"], p["category"], p["quantity_in_stock"], _money(p["price"]), _money(p["value"]), p["status"]]
            for p in report["products"]
        )
        elements.append(_table(rows, [140, 70, 50, 70, 80, 80]))

    return _build(elements)

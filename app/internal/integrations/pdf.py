# app.internal.integrations.pdf

if __name__ == '__main__':
    from os.path import abspath
    from sys import path as sys_path

    sys_path.append(abspath('.'))

from html import escape
from typing import Any

from playwright.async_api import async_playwright

from app.config import Config
from app.internal.facturacion.payload import compute_totals
from app.internal.gen.utilities import format_money, format_quantity
from app.internal.log import factory_logger

pdf_log = factory_logger('pdf', file=True)


def render_invoice_html(invoice: Any, emitter: Any, customer: Any, items: list[Any]) -> str:
    """Plantilla HTML del comprobante impreso de la factura autorizada."""
    totals = compute_totals(items)
    filas = ''.join(
        f"""
        <tr>
            <td class="center">{position:03d}</td>
            <td>{escape(item.sku or '')}</td>
            <td>{escape(item.description)}</td>
            <td class="right">{format_quantity(item.qty)}</td>
            <td class="right">{format_money(item.unit_price)}</td>
            <td class="center">{escape(item.itbms_rate)}%</td>
            <td class="right">{format_money(tax)}</td>
            <td class="right">{format_money(item.line_total)}</td>
        </tr>"""
        for position, (item, tax) in enumerate(zip(items, totals.line_taxes), start=1)
    )
    ambiente = '' if emitter.iamb == 1 else '<p class="test">DOCUMENTO DE PRUEBA - SIN VALOR FISCAL</p>'

    return f"""<!DOCTYPE html>
<html lang="es">
<head>
<meta charset="utf-8">
<style>
    body {{ font-family: Arial, sans-serif; font-size: 11px; color: #222; }}
    h1 {{ font-size: 18px; margin: 0; }}
    table {{ width: 100%; border-collapse: collapse; margin-top: 12px; }}
    th, td {{ border: 1px solid #ccc; padding: 4px; }}
    th {{ background: #f0f0f0; }}
    .right {{ text-align: right; }}
    .center {{ text-align: center; }}
    .totales td {{ border: none; }}
    .cufe {{ word-break: break-all; font-family: monospace; }}
    .test {{ color: #b00; font-weight: bold; }}
</style>
</head>
<body>
    <h1>{escape(emitter.name)}</h1>
    <p>RUC {escape(emitter.ruc_numero)} DV {escape(emitter.ruc_dv)}<br>{escape(emitter.address_line or '')}</p>
    {ambiente}
    <h2>Factura Electrónica No. {escape(invoice.d_nrodf)}</h2>
    <p>Punto de facturación {escape(invoice.d_ptofacdf)} - Emitida {invoice.issued_at:%Y-%m-%d %H:%M}</p>
    <p><strong>Cliente:</strong> {escape(customer.name)}<br>
       {escape(customer.tax_id or '')} {escape(customer.email or '')}</p>
    <table>
        <thead>
            <tr>
                <th>#</th><th>Código</th><th>Descripción</th><th>Cant.</th><th>Precio</th>
                <th>ITBMS</th><th>Valor ITBMS</th><th>Total</th>
            </tr>
        </thead>
        <tbody>{filas}
        </tbody>
    </table>
    <table class="totales">
        <tr><td class="right">Subtotal</td><td class="right">{format_money(totals.net)}</td></tr>
        <tr><td class="right">ITBMS</td><td class="right">{format_money(totals.tax)}</td></tr>
        <tr><td class="right"><strong>Total</strong></td><td class="right"><strong>{format_money(totals.gross)}</strong></td></tr>
    </table>
    <p><strong>CUFE:</strong> <span class="cufe">{escape(invoice.cufe or '')}</span></p>
    <p>Consulte este documento en: <a href="{escape(invoice.url_cufe or '')}">{escape(invoice.url_cufe or '')}</a></p>
</body>
</html>"""


async def render_pdf(html: str, timeout: int = Config.pdf_timeout) -> bytes:
    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=True,
            args=[
                '--no-sandbox',
                '--disable-dev-shm-usage',
                '--disable-gpu',
            ],
        )
        try:
            page = await browser.new_page()
            await page.set_content(html, wait_until='load', timeout=timeout * 1000)
            pdf = await page.pdf(
                format='A4',
                print_background=True,
                margin={'top': '15mm', 'bottom': '15mm', 'left': '12mm', 'right': '12mm'},
            )
            pdf_log.info(f'PDF generado ({len(pdf)} bytes)')
            return pdf
        finally:
            await browser.close()

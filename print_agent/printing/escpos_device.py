"""
ESC/POS raster printing for directly attached receipt printers.

The rendered page is captured as a PNG, flattened to grayscale at the printer's
dot width with Pillow, and sent with python-escpos (image, feed, cut).
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

from PIL import Image

from .drivers import DriverResult

if TYPE_CHECKING:
    from print_agent.core.config import EscposDevice

logger = logging.getLogger(__name__)


def connect_printer(device: "EscposDevice"):
    """
    Create and return an ESC/POS printer instance for the device.
    Supports USB, Network, and Serial with optional 'printer_profile'.
    """
    profile = device.printer_profile or None
    ptype = device.printer_type

    if ptype == "usb":
        from escpos.printer import Usb

        vendor = int(str(device.usb_vendor_id), 16)
        product = int(str(device.usb_product_id), 16)
        if profile:
            return Usb(vendor, product, profile=profile)
        return Usb(vendor, product)
    if ptype == "network":
        from escpos.printer import Network

        if profile:
            return Network(device.network_ip, device.network_port, profile=profile)
        return Network(device.network_ip, device.network_port)
    if ptype == "serial":
        from escpos.printer import Serial

        if profile:
            return Serial(device.serial_port, baudrate=device.serial_baudrate, profile=profile)
        return Serial(device.serial_port, baudrate=device.serial_baudrate)
    raise RuntimeError(f"Unsupported printer type: {ptype}")


def prepare_raster(png: bytes, width: int) -> Image.Image:
    """
    Decode a PNG, flatten transparency onto white, and scale it to `width` dots (mode 'L').
    """
    with Image.open(io.BytesIO(png)) as src:
        src.load()
        if src.mode in ("RGBA", "LA", "P"):
            rgba = src.convert("RGBA")
            flat = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
            flat.alpha_composite(rgba)
            img = flat.convert("L")
        else:
            img = src.convert("L")
    if img.width != width and img.width > 0:
        height = max(1, round(img.height * width / img.width))
        img = img.resize((width, height), Image.LANCZOS)
    return img


def print_raster(device: "EscposDevice", png: bytes) -> DriverResult:
    """
    Print a rendered page on an ESC/POS device. Connection and I/O errors propagate.
    """
    img = prepare_raster(png, device.receipt_width)
    logger.info("Attempting to connect to ESC/POS printer %s...", device.name)
    p = connect_printer(device)
    try:
        p.image(img)
        if device.cut_feed_lines > 0:
            p.text("\n" * device.cut_feed_lines)
        p.cut()
    finally:
        try:
            p.close()
        except Exception as e:
            logger.debug("ESC/POS close failed: %s", e)
    logger.info("Printed and cut receipt on %s (%dx%d dots)", device.name, img.width, img.height)
    return DriverResult(True, f"Printed {img.width}x{img.height} raster on '{device.name}'.")


__all__ = ["connect_printer", "prepare_raster", "print_raster"]

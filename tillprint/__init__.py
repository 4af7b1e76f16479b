"""tillprint - Receipt printing for point-of-sale terminals.

Formats orders as 32-column receipts, encodes them as ESC/POS and sends
them to a USB or network thermal printer.

Usage:
    uvicorn tillprint.main:app
    tillprint devices
    tillprint status --tenant TENANT_ID
    tillprint test-page --tenant TENANT_ID
"""

__version__ = "0.1.0"

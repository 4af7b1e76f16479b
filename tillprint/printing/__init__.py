"""Receipt printing: formatting, ESC/POS encoding, transports and the printer controller."""

__project__ = "PixelPilot"
__version__ = "0.1.0"

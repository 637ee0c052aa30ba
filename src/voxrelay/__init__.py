"""VoxRelay — relay de audio para texto em tempo real via WebSocket."""

__version__ = "0.1.0"

from .hub import ClientHub

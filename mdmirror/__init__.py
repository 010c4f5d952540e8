"""Mirror a tree of markdown documents into rendered HTML and keep it current."""

__version__ = "0.1.0"

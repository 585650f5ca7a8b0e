"""Visual Env Compare - Visueller Vergleich zweier Umgebungen (Stage vs. Prod)."""

__version__ = "1.0.0"
__author__ = "Visual Env Compare Contributors"

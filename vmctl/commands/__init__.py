"""vmctl CLI commands"""

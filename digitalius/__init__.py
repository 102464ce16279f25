"""Digitalius: question answering over circulars, instructivos and the digital file regulation."""

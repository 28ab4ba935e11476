"""Bilingual doctor/patient conversation pipeline: translate, store, search, summarise."""

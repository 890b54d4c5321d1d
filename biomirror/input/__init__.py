"""Capture adapters and transport decoding"""

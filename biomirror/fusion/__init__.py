"""Cross-modal fusion of facial and physiological evidence"""

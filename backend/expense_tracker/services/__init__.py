"""
Services of the receipt pipeline.
"""

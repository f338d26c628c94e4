"""
Services that persist cashier transitions
"""

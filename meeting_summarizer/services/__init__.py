"""
Pipeline stages and the external service clients they use.
"""

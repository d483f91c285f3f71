"""
Channel layer: delivers frames between clients and the broadcast engine.
"""

"""
quiver.registry — Multi-registry publishing pipeline.

    raw image ─▶ reference ─▶ credentials ─▶ authenticator ─▶ push ─▶ cleanup
"""

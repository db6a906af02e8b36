"""reMarkable framebuffer capture pipeline"""

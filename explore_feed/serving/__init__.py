"""HTTP serving layer for the feed engine"""

"""
Mirror Sync — Keep local bare mirrors of git projects pushed to a target host.
"""

__version__ = "0.1.0"

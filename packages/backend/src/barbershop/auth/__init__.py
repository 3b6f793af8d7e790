"""Token verification for the push stream.

Learn: Users sign in through the web application, which mints a JWT
access token. This package only verifies that token and turns it into
a "current identity" (user id + role) for event target filtering.
"""

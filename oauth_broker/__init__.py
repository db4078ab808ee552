"""
OAuth Broker
Redirect/callback broker dispatching to OAuth1 and OAuth2 authenticators
"""

"""
SpeechMate Gateway
==================

Server-side front door for the SpeechMate web app: signs users in with
Google (OpenID Connect), keeps the principal in a signed session cookie,
sends the browser back to the front end matching the gateway host, and
applies the credentialed CORS policy for the SPA's API calls.

Packages:
---------
- auth: registrations, authorization redirects, gate, callback
- api:  endpoints consumed by the SPA
"""

__version__ = "1.0.0"

"""Daemon console sample for the OAuth2 client-credentials flow.

The package reads an ``appsettings.json`` file, authenticates as an application
(client secret or certificate), lists the directory users through Microsoft Graph
and pushes one To-Do per user to a protected web API.
"""

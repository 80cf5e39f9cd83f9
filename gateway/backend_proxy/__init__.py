"""
Backend API proxy.

Forwards browser-originated calls to the backend API and relays the backend's
answer unchanged. Two kinds of route are mounted per backend resource:

    {PROXY_PREFIX}/<resource>                 collection proxy, whitelisted query params
    {PROXY_PREFIX}/<resource>/{params:path}   catch-all proxy, sub-path appended verbatim

Example with curl, against a backend at http://localhost:4000:
    curl "http://localhost:8000/api/custom-variables?search=name&other=dropped"
    # -> GET http://localhost:4000/api/custom-variables?search=name
"""

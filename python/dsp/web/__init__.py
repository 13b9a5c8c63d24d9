"""
Web service infrastructure for DSP services: a small WSGI-based REST framework
(:py:mod:`dsp.web.rest`) along with support for content negotiation (:py:mod:`dsp.web.formats`).
"""

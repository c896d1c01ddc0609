"""EHR Connect: SMART-on-FHIR integration for the clinician portal.

This package connects a clinician's account to their EHR through the
Plasma FHIR gateway, keeps their OAuth credentials encrypted and fresh,
pulls patient records into a normalized shape, and writes an audit trail
of every access.
"""

"""Traffic Ticket Field Extraction.

A tiered pipeline that turns OCR output of Hebrew traffic-violation tickets
into validated structured fields, combining fuzzy keyword detection, regex
extraction and an optional chat-model pass.
"""

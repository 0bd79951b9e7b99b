"""Attachment preprocessing.

Turns the optional text/image/document/audio input of a request into a bounded
text summary. File access is confined to the upload directory.
"""

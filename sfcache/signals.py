"""
Signals sent by SalesforceConnection after successful writes

sender: the SalesforceConnection class
kwargs:
    entity:      Salesforce object name, e.g. 'Account'
    record_ids:  list of affected Ids (can be empty for bulk inserts)
    connection:  the SalesforceConnection instance
"""
from django.dispatch import Signal

record_created = Signal()
record_updated = Signal()
record_deleted = Signal()
record_restored = Signal()

'''
Appointment booking & reconciliation backend.
'''

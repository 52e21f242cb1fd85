"""Mock and real HTTP implementations of the collaborator interfaces."""

class PromotionError(Exception):
    """Base class for errors that stop a promotion operation before it starts."""


class CampaignNotFound(PromotionError):
    def __init__(self, campaign_id):
        self.campaign_id = campaign_id
        super().__init__('Campaign not found')


class CampaignAlreadyExecuted(PromotionError):
    def __init__(self, campaign_id):
        self.campaign_id = campaign_id
        super().__init__('Campaign already executed')


class CampaignCancelled(PromotionError):
    def __init__(self, campaign_id):
        self.campaign_id = campaign_id
        super().__init__('Campaign has been cancelled')


class NoRecordsToProcess(PromotionError):
    def __init__(self, campaign_id):
        self.campaign_id = campaign_id
        super().__init__('No promotion records to process')


class InvalidCampaignTransition(PromotionError):
    def __init__(self, current, new):
        self.current = current
        self.new = new
        super().__init__(f'Cannot move campaign from {current} to {new}')


class StudentNotFound(Exception):
    """Raised for a single promotion record; never stops the batch."""

    def __init__(self, student_id):
        self.student_id = student_id
        super().__init__('Student not found')

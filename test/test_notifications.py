import pytest

from chalicelib.utils.boto_clients import get_ses_client
from chalicelib.utils.notifications import send_email_ses

from test.utils.fixtures import aws_environment


@pytest.mark.local_db_test
def test_send_email_ses(aws_environment):
    get_ses_client().verify_email_identity(EmailAddress='canteen@hostel.test')

    message_id = send_email_ses(['asha@hostel.test', ''], 'canteen@hostel.test', 'Order AH000001 is READY',
                                'Your order is ready for pickup!')

    assert message_id


def test_send_email_without_recipients():
    assert send_email_ses(['', None], 'canteen@hostel.test', 'subject', 'message') is None
